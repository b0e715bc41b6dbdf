"""sqlstore.store -- object model, query engine and storage facade."""
