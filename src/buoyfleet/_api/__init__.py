"""Control-plane endpoint modules (internal)."""
