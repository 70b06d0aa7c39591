"""External collaborators used by the batch processors."""
