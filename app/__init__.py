"""HTTP interface for the budget expense reporter."""
