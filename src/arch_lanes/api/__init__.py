"""HTTP boundary: run submission, job queue endpoints, and direct dispatch."""
