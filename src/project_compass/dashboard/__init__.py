"""Task and scan orchestration for project-compass front ends."""
