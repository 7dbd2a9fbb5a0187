"""Feature packages of the random image server."""
