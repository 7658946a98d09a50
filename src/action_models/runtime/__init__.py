"""Agent simulation runtime."""

from .agent import Agent, init_agent, iter_simulate, simulate

__all__ = ["Agent", "init_agent", "iter_simulate", "simulate"]
