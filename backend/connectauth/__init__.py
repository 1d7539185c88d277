"""connectauth - OAuth account connections for an existing password login.

Adds social login next to a host application's own users table:
- Log in and sign up with Apple, Google and GitHub
- Link further providers to a logged-in account
- Unlink providers without locking the user out
- List the providers connected to the current user
"""

__version__ = "0.1.0"
__author__ = "connectauth Contributors"
