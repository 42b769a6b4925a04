"""Application services orchestrating governed text generation."""
