"""WhatsApp helpdesk ingestion service."""
