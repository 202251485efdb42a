"""Group services: scheduling, invite codes, lifecycle and attendance."""
