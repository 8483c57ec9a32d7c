"""CarePortal: staff-facing patient management backend."""
