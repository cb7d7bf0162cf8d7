"""Domain services for tracking and syncing items."""
