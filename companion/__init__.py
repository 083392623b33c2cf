"""Coding companion dispatcher: decides when to talk to the model and what to say."""
