"""Pydantic schemas shared between the Askbox server and its clients."""
