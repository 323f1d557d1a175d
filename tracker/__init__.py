"""Brigade lead attendance tracking."""
