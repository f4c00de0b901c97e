"""HTTP plumbing: URL building and the rate-aware request executor."""
