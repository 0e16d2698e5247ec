"""Domain models shared by the queue, the linkage store and the reconciler."""
