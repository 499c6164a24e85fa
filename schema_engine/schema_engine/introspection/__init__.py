"""Live schema capture and dialect normalization."""
