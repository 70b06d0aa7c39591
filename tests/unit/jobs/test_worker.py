"""Tests for the headless batch worker."""

import os
import socket

from arbatch.jobs.worker import generate_worker_id


class TestGenerateWorkerId:
    def test_worker_id_format(self):
        worker_id = generate_worker_id()
        # Format: hostname:pid
        hostname, pid = worker_id.rsplit(":", 1)
        assert hostname == socket.gethostname()
        assert pid == str(os.getpid())
