from .playbook import dump_playbook, export_plan, plan_to_playbook

__all__ = ["dump_playbook", "export_plan", "plan_to_playbook"]
