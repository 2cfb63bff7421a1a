"""Report classification, column resolution and entity resolution."""
