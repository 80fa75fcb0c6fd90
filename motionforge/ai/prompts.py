"""Prompt rendering for animation command generation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

_COMMAND_FORMAT = """Command format (JSON array of objects):
[
  {
    "fragmentId": <number>,
    "action": "rotate" | "scale" | "translate",
    "params": {
      // For "rotate": "axis" ("x","y","z"), "angle": <degrees>
      // For "scale": "factor": <number>
      // For "translate": "x": <number>, "y": <number>, "z": <number>
    }
  }
]"""

_GUIDELINES = (
  "Create a disassembly view showing assembly relationships",
  "Move parts along logical axes based on their position in the assembly",
  "Rotate rotating components (shaft, rotor, screws) to show movements of disassembly",
  "Scale small parts to make them more visible",
  "Use reasonable translations depending on part size for disassembly",
  "Include 20-30 commands for a comprehensive animation; at the end the assembly should disassemble completely and then reassemble",
  "Prioritize moving outer components first then inner ones",
  "Consider mechanical relationships between parts",
)


def _objects(payload: Mapping[str, Any] | None, key: str) -> list[Mapping[str, Any]]:
  data = (payload or {}).get("data") or {}
  items = data.get(key) if isinstance(data, Mapping) else None
  return [item for item in items or [] if isinstance(item, Mapping)]


def _describe_node(node: Mapping[str, Any], level: int, lines: list[str]) -> None:
  lines.append(f"{'  ' * level}- {node.get('name', 'Unnamed')} (ID: {node.get('objectid')})")
  for child in node.get("objects") or []:
    if isinstance(child, Mapping):
      _describe_node(child, level + 1, lines)


def describe_hierarchy(hierarchy: Mapping[str, Any] | None) -> str:
  """Render the object tree as an indented bullet list."""
  lines = ["Model Hierarchy:"]
  for root in _objects(hierarchy, "objects"):
    _describe_node(root, 0, lines)
  return "\n".join(lines)


def _describe_properties(properties: Mapping[str, Any] | Any) -> Iterable[str]:
  if not isinstance(properties, Mapping):
    return
  for category, values in properties.items():
    if isinstance(values, Mapping):
      yield f"  • {category}:"
      for key, value in values.items():
        yield f"    ◦ {key}: {value}"
    else:
      yield f"  • {category}: {values}"


def describe_properties(properties: Mapping[str, Any] | None) -> str:
  """Render each object's property categories."""
  lines = ["Key Properties:"]
  for item in _objects(properties, "collection"):
    lines.append(f"- {item.get('name', 'Unnamed')} (ID: {item.get('objectid')}):")
    lines.extend(_describe_properties(item.get("properties")))
  return "\n".join(lines)


def build_animation_prompt(hierarchy: Mapping[str, Any] | None, properties: Mapping[str, Any] | None) -> str:
  """Build the full generation prompt from stored hierarchy and property artifacts."""
  guidelines = "\n".join(f"{index}. {line}" for index, line in enumerate(_GUIDELINES, start=1))
  sections = [
    "You are an expert 3D animation assistant for Autodesk Platform Services models.",
    "Generate a sequence of animation commands for the following fragments that will create a logical, visually appealing animation of disassembly.",
    describe_hierarchy(hierarchy),
    describe_properties(properties),
    _COMMAND_FORMAT,
    f"Guidelines:\n{guidelines}",
    "Generate only the JSON array with no additional text.",
  ]
  return "\n\n".join(sections)
