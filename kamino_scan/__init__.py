"""Kamino Lend flash loan and borrow scanner."""
