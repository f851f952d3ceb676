"""SkillHub session negotiation service."""
