"""AIverse key pool backend."""
