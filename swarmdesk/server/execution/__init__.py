"""Swarm execution: process spawning, credential lookup, event relay and the runner."""
