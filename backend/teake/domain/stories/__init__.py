"""Stories posted about guys, with their feed and trending views."""
