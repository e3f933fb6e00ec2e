"""lorekeeper - context augmentation for roleplay chat agents.

Decides, for each generated turn, which lore entries and which past
memories are injected into the prompt, under a token budget, and renders
the result into role-tagged chat messages.
"""

__version__ = "0.1.0"
