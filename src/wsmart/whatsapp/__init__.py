"""WhatsApp provider payload handling."""
