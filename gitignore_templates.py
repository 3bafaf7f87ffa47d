"""
.gitignore boilerplate used by quickgit.

DEFAULT_GITIGNORE is written by every provisioning run; the per-type
templates back the ``quickgit ignore`` command.
"""

import os
from typing import Dict

HEADER = "# Generated by quickgit\n\n"

DEFAULT_GITIGNORE = """# Dependencies
/node_modules
/.pnp
.pnp.js

# Testing
/coverage

# Production
/build
/dist

# Misc
.DS_Store
.env.local
.env.development.local
.env.test.local
.env.production.local

# Logs
npm-debug.log*
yarn-debug.log*
yarn-error.log*

# Editor
.idea/
.vscode/
*.swp
*.swo

# OS generated files
.DS_Store
.DS_Store?
._*
.Spotlight-V100
.Trashes
ehthumbs.db
Thumbs.db
"""

GITIGNORE_TEMPLATES: Dict[str, str] = {
    "node": """# Dependencies
node_modules/
package-lock.json
yarn.lock
pnpm-lock.yaml

# Build
dist/
build/

# Logs
npm-debug.log*
yarn-debug.log*
yarn-error.log*
.pnpm-debug.log*

# Environment
.env
.env.*

# Editor
.vscode/
.idea/
*.sublime-project
*.sublime-workspace

# System
.DS_Store
Thumbs.db
""",
    "python": """# Python
__pycache__/
*.py[cod]
*$py.class
*.so
.Python
env/
venv/
.env/
dist/
build/
*.egg-info/

# Editor
.vscode/
.idea/

# System
.DS_Store
Thumbs.db
""",
    "java": """# Java
*.class
*.jar
*.war
target/
build/
.gradle/

# IDE
.idea/
*.iml
.vscode/

# System
.DS_Store
Thumbs.db
""",
    "web": """# Dependencies
node_modules/
bower_components/

# Build
dist/
build/
*.min.*

# Editor
.vscode/
.idea/

# System
.DS_Store
Thumbs.db
""",
}


def render_template(project_type: str) -> str:
    """Return a complete .gitignore for one project type."""
    if project_type not in GITIGNORE_TEMPLATES:
        raise KeyError(f"Unknown .gitignore template: {project_type}")
    return HEADER + GITIGNORE_TEMPLATES[project_type]


def write_gitignore(directory: str, content: str = DEFAULT_GITIGNORE) -> str:
    """Write .gitignore into directory and return its path."""
    path = os.path.join(directory, ".gitignore")
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    return path
