"""burrow — container entrypoint that nests a Docker daemon and supervises one service."""
