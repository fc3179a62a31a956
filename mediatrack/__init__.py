"""mediatrack: personal media tracking backend."""
