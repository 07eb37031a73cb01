"""plantchat: real-time owner/consumer chat for the plant marketplace."""
