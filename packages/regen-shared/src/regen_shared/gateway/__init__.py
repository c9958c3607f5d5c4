"""Gateway ABCs with real and fake implementations."""
