"""OAuth account connection: login, signup, link and unlink with social providers."""
