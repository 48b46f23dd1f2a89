"""Feature packages for rolemate."""
