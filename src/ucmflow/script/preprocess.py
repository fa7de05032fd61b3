""" Script cleanup run once before a script executes

Block forms are collapsed into single line command calls:

    SHOW_MESSAGE:                   SHOW_MESSAGE "Hello\\nthere"
        Hello               ->
        there

    MOVE_ENTITY "player":           MOVE_ENTITY "player" {face_left, move_left}
        face_left           ->
        move_left

    ASK_CHOICE $answer:             ASK_CHOICE $answer {"Yes", "No"}
        Yes                 ->
        No
"""

import re
import textwrap
from typing import Callable, Dict, List, Optional, Tuple

from ucmflow import util
from ucmflow.expressions import VARIABLE_FORMAT

RE_COMMENT = re.compile(r'((?:[^"#]|"[^"]*")*)#.*')
RE_SHOW_MESSAGE_BLOCK = re.compile(r"(\s*)SHOW_MESSAGE:")
RE_MOVE_ENTITY_BLOCK = re.compile(r'(\s*)MOVE_ENTITY\s+("[^"]+"):')
RE_ASK_CHOICE_BLOCK = re.compile(r"(\s*)ASK_CHOICE\s+(" + VARIABLE_FORMAT + r"):")

RE_LABEL = re.compile(r"\s*LABEL\s+(\S+).*")

def strip_comment(line:str) -> str:
    """ drops a # comment unless the # sits inside double quotes """
    m = RE_COMMENT.fullmatch(line)
    return m.group(1) if m else line

def _show_message(indent:str, head:re.Match, body:List[str]) -> str:
    text = "\\n".join(body).replace('"', '\\"')
    return f'{indent}SHOW_MESSAGE "{text}"'

def _move_entity(indent:str, head:re.Match, body:List[str]) -> str:
    return f'{indent}MOVE_ENTITY {head.group(2)} {{{", ".join(body)}}}'

def _ask_choice(indent:str, head:re.Match, body:List[str]) -> str:
    choices = ", ".join(f'"{b}"' for b in body)
    return f'{indent}ASK_CHOICE {head.group(2)} {{{choices}}}'

BlockForm = Tuple[re.Pattern, Optional[int], Callable[[str, re.Match, List[str]], str]]

BLOCK_FORMS:List[BlockForm] = [
    (RE_SHOW_MESSAGE_BLOCK, 3, _show_message),
    (RE_MOVE_ENTITY_BLOCK, None, _move_entity),
    (RE_ASK_CHOICE_BLOCK, 3, _ask_choice),
]

def _is_nested(line:str, indent:str) -> bool:
    whitespace = util.leading_whitespace(line)
    return whitespace.startswith(indent) and len(whitespace) > len(indent)

def collapse_blocks(lines:List[str]) -> List[str]:
    collapsed = []
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        for pattern, limit, collapse in BLOCK_FORMS:
            head = pattern.fullmatch(line)
            if head is None:
                continue
            indent = head.group(1)
            body:List[str] = []
            while i < len(lines) and _is_nested(lines[i], indent) and (limit is None or len(body) < limit):
                body.append(lines[i].strip())
                i += 1
            if body:
                line = collapse(indent, head, body)
            break
        collapsed.append(line)
    return collapsed

def clean_script(script:str) -> List[str]:
    """ turns script text into executable lines, possibly none """
    lines = [strip_comment(line).rstrip() for line in script.replace("\r", "").split("\n")]
    lines = [line for line in textwrap.dedent("\n".join(lines)).split("\n") if line.strip()]
    return collapse_blocks(lines)

def find_labels(lines:List[str]) -> Dict[str, int]:
    """ line index of every LABEL, the later one winning on duplicates """
    labels:Dict[str, int] = {}
    for i, line in enumerate(lines):
        m = RE_LABEL.fullmatch(line)
        if m:
            labels[m.group(1)] = i
    return labels
