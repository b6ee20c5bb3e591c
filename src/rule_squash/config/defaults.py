"""Built-in default configuration for rule-squash."""

# Lowest-precedence layer; recipes files and environment variables merge on top
DEFAULT_CONFIG = {
    "version": "1.0",
    "settings": {
        "rules_dir": "rules",
        "user_dir": "~/.config/rule-squash/rules-home",
        "commands_dir": "commands",
        "skills_dir": "skills",
        "bin_pattern": r"bin/.*\.sh$",
        "default_branch": "main",
        "output_file": "CLAUDE.local.md",
        "agents_output": ".claude/agents",
        "commands_output": ".claude/commands",
        "skills_output": ".claude/skills",
        "scripts_output": ".claude/scripts",
    },
    "recipes": {},
}

USER_RECIPES_FILE = "~/.config/rule-squash/recipes.yml"
BASE_RECIPES_FILE = "recipes.yml"
