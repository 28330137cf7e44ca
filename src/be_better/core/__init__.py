"""Pure domain pieces shared by the client and the server: events and rewards."""
