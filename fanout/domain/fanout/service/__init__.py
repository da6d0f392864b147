"""Fan-out domain services: rendering and the two fan-out reconcilers."""
