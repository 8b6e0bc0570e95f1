"""Application layer: feed session state machine and supervision."""
