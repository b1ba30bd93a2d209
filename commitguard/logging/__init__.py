"""Privacy helpers for CommitGuard logs and reports."""
