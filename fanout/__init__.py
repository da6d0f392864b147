"""Fan-out operator: resolve item lists and fan them out into indexed Jobs."""
