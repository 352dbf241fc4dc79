"""Dataset provisioning and statistics."""
