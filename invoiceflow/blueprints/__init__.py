"""JSON API blueprints (auth, invoices)."""
