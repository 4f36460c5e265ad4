"""Upload file/line-scoped annotations to GitHub check runs."""
