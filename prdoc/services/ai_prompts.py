"""Prompt templates for the AI service."""

SUMMARY_PROMPT = """You are a technical lead. Analyze the Git diff for PR #{pr_number} in "{owner}/{repo}".

Task: Create a concise, high-impact technical summary in Markdown format.
Rules: Use bullet points. Be extremely brief and to the point. No fluff.

Structure:
# PR #{pr_number} - Technical Documentation

## Goal
One sentence summary of the PR.

## Key Changes
Short bullet points of only the important logical/technical changes.

## Files Modified
List files with a 1-line description of the change in each.

## Impact
Brief note on the impact of these changes.

Diff Data:
{diff_data}"""

DIFF_TRUNCATED_MARKER = "\n... (diff truncated to fit the model context)"
