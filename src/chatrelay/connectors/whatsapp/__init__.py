"""WhatsApp Web session orchestration and message extraction."""
