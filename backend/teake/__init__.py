"""TeaKE backend: repositories and HTTP surface for stories, comments and chat."""
