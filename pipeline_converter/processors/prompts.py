"""
Prompt templates for the conversion and validation exchanges.

Both templates are filled with ``str.format``; literal braces in the text
are doubled. The validation template asks for the markdown layout that
``response_extractor.parse_validation_response`` understands.
"""

from pipeline_converter.models.dto import WorkItem

CONVERSION_PROMPT_V1 = """You are an expert in CI/CD pipeline migration. Convert the following {source_label} pipeline to a GitHub Actions workflow.

Requirements:
1. Produce a valid GitHub Actions workflow YAML file
2. Map all stages/jobs to appropriate GitHub Actions jobs
3. Convert environment variables to GitHub Actions format
4. Use appropriate GitHub Actions (e.g., actions/checkout@v4, actions/setup-node@v4)
5. Preserve the original pipeline's logic and flow
6. Add helpful comments where the mapping is not 1:1
7. Use modern GitHub Actions best practices

Source Pipeline ({name}):
```
{original_text}
```

Respond with ONLY the GitHub Actions workflow YAML, wrapped in ```yaml code blocks.
After the YAML, you may add brief notes about any manual adjustments needed.
"""

VALIDATION_PROMPT_V1 = """You are a GitHub Actions expert reviewing a converted workflow. Analyze the generated workflow for:

1. **Correctness**: Does it accurately represent the original pipeline's logic?
2. **Best Practices**: Does it follow GitHub Actions best practices?
3. **Security**: Are there any security concerns?
4. **Efficiency**: Can it be optimized?
{tools_hint}
Original Pipeline:
```
{original_text}
```

Generated GitHub Actions Workflow:
```yaml
{workflow}
```

Provide your analysis in this format:

## Issues Found
- [ERROR/WARNING/INFO]: Description (Line X if applicable)

## Suggestions
- Suggestion 1
- Suggestion 2

## Improved Workflow (if changes recommended)
```yaml
# Only include if you have improvements
```
"""

TOOLS_HINT = (
    "\nUse the available tools to validate syntax, check security, "
    "and verify action versions.\n"
)


def build_conversion_prompt(item: WorkItem) -> str:
    return CONVERSION_PROMPT_V1.format(
        source_label=item.source_kind.display_name,
        name=item.name,
        original_text=item.original_text,
    )


def build_validation_prompt(item: WorkItem, workflow: str, with_tools: bool = False) -> str:
    return VALIDATION_PROMPT_V1.format(
        tools_hint=TOOLS_HINT if with_tools else "",
        original_text=item.original_text,
        workflow=workflow,
    )
