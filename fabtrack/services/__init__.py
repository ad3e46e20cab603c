"""Business services: each module owns its rules and commits."""
