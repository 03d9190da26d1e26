"""Ticketbooth: event ticketing, RSVPs and payment reconciliation."""
