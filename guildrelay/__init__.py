"""Discord relay for Trello, GitHub and Google Calendar webhooks."""
