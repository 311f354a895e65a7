"""Network collaborators for the letter overlay."""
