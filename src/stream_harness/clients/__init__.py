"""AWS service clients."""
