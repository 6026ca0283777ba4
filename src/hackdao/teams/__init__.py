"""Member, team and contribution directory."""

from hackdao.teams.directory import Directory

__all__ = ["Directory"]
