"""Prompts shipped with the package, used when neither cache nor network is available."""
from .models import Prompt

_AUTHOR = "JeffreysPrompts"
_VERSION = "1.0.0"

_CODE_VAR = {"name": "CODE", "type": "multiline", "required": True, "description": "Source code to work on"}

BUNDLED_PROMPTS = [
    {
        "id": "code-review",
        "title": "Code Review Assistant",
        "description": "Comprehensive code review with actionable feedback",
        "category": "debugging",
        "tags": ["review", "quality"],
        "featured": True,
        "variables": [_CODE_VAR],
        "content": (
            "Review this code for:\n"
            "1. Bugs and potential issues\n"
            "2. Performance problems\n"
            "3. Security vulnerabilities\n"
            "4. Code style and readability\n"
            "5. Best practices\n"
            "\n"
            "Code to review:\n"
            "{{CODE}}\n"
            "\n"
            "Provide specific, actionable feedback."
        ),
    },
    {
        "id": "explain-code",
        "title": "Code Explainer",
        "description": "Get clear explanations of complex code",
        "category": "documentation",
        "tags": ["explain", "learning"],
        "featured": True,
        "variables": [_CODE_VAR],
        "content": (
            "Explain this code in detail:\n"
            "\n"
            "{{CODE}}\n"
            "\n"
            "Include:\n"
            "- What the code does overall\n"
            "- Key functions/methods and their purposes\n"
            "- Important data structures\n"
            "- Any notable patterns or techniques used"
        ),
    },
    {
        "id": "write-tests",
        "title": "Test Generator",
        "description": "Generate comprehensive test suites",
        "category": "testing",
        "tags": ["tests", "quality"],
        "featured": True,
        "variables": [_CODE_VAR],
        "content": (
            "Write comprehensive tests for this code:\n"
            "\n"
            "{{CODE}}\n"
            "\n"
            "Requirements:\n"
            "- Cover edge cases\n"
            "- Include both positive and negative test cases\n"
            "- Use appropriate testing patterns\n"
            "- Add meaningful test descriptions"
        ),
    },
    {
        "id": "refactor",
        "title": "Refactoring Assistant",
        "description": "Get suggestions for cleaner, better code",
        "category": "refactoring",
        "tags": ["refactor", "clean-code"],
        "featured": False,
        "variables": [
            _CODE_VAR,
            {"name": "LANGUAGE", "type": "text", "required": False, "default": "the language's"},
        ],
        "content": (
            "Refactor this code to improve:\n"
            "- Readability\n"
            "- Maintainability\n"
            "- Performance (where applicable)\n"
            "- Adherence to {{LANGUAGE}} best practices\n"
            "\n"
            "Code to refactor:\n"
            "{{CODE}}\n"
            "\n"
            "Explain each change you make."
        ),
    },
    {
        "id": "debug",
        "title": "Debug Helper",
        "description": "Systematic debugging assistance",
        "category": "debugging",
        "tags": ["debug", "troubleshoot"],
        "featured": True,
        "variables": [
            {"name": "ERROR", "type": "multiline", "required": True, "description": "Error message or stack trace"},
            _CODE_VAR,
            {"name": "ATTEMPTS", "type": "multiline", "required": False, "default": "Nothing yet."},
        ],
        "content": (
            "Help me debug this issue:\n"
            "\n"
            "Error message:\n"
            "{{ERROR}}\n"
            "\n"
            "Relevant code:\n"
            "{{CODE}}\n"
            "\n"
            "What I've tried:\n"
            "{{ATTEMPTS}}\n"
            "\n"
            "Please:\n"
            "1. Analyze the error\n"
            "2. Identify likely causes\n"
            "3. Suggest specific fixes\n"
            "4. Explain why the fix works"
        ),
    },
    {
        "id": "documentation",
        "title": "Documentation Writer",
        "description": "Generate clear, comprehensive documentation",
        "category": "documentation",
        "tags": ["docs", "readme"],
        "featured": False,
        "variables": [_CODE_VAR],
        "content": (
            "Write documentation for this code:\n"
            "\n"
            "{{CODE}}\n"
            "\n"
            "Include:\n"
            "- Overview/purpose\n"
            "- Usage examples\n"
            "- Parameter descriptions\n"
            "- Return value documentation\n"
            "- Any important notes or caveats"
        ),
    },
    {
        "id": "optimize",
        "title": "Performance Optimizer",
        "description": "Get performance optimization suggestions",
        "category": "refactoring",
        "tags": ["performance", "optimization"],
        "featured": False,
        "variables": [_CODE_VAR],
        "content": (
            "Analyze and optimize this code for performance:\n"
            "\n"
            "{{CODE}}\n"
            "\n"
            "Focus on:\n"
            "- Time complexity improvements\n"
            "- Memory usage optimization\n"
            "- I/O efficiency\n"
            "- Caching opportunities\n"
            "- Parallelization potential\n"
            "\n"
            "Explain the performance impact of each change."
        ),
    },
    {
        "id": "api-design",
        "title": "API Design Review",
        "description": "Get expert API design feedback",
        "category": "ideation",
        "tags": ["api", "design"],
        "featured": False,
        "variables": [
            {"name": "API_SPEC", "type": "multiline", "required": True, "description": "Endpoints, schemas or an OpenAPI document"},
        ],
        "content": (
            "Review this API design:\n"
            "\n"
            "{{API_SPEC}}\n"
            "\n"
            "Evaluate:\n"
            "- RESTful principles adherence\n"
            "- Naming conventions\n"
            "- Error handling approach\n"
            "- Versioning strategy\n"
            "- Security considerations\n"
            "- Documentation completeness\n"
            "\n"
            "Suggest improvements for each area."
        ),
    },
]


def bundled_prompts():
    """Fresh Prompt objects for the bundled set (callers may mutate them)."""
    out = []
    for data in BUNDLED_PROMPTS:
        out.append(Prompt.from_dict(dict(data, author=_AUTHOR, version=_VERSION)))
    return out


# Curated groups of bundled prompt ids, shown by `jfp bundles` / `jfp bundle ID`.
BUNDLES = [
    {
        "id": "getting-started",
        "title": "Getting Started",
        "description": "Essential prompts for new users",
        "prompt_ids": ["code-review", "debug", "explain-code"],
    },
    {
        "id": "quality-essentials",
        "title": "Quality Essentials",
        "description": "Core prompts for code quality and refactoring",
        "prompt_ids": ["write-tests", "refactor", "optimize"],
    },
    {
        "id": "docs-and-design",
        "title": "Docs & Design",
        "description": "Prompts for documentation and API design",
        "prompt_ids": ["documentation", "api-design", "explain-code"],
    },
]


def get_bundle(bundle_id):
    for bundle in BUNDLES:
        if bundle["id"] == bundle_id:
            return bundle
    return None
