""" Tests for the event script interpreter and its commands """

import re

import pytest

from ucmflow.script import ScriptManager, ScriptCommand
from ucmflow.script import commands, preprocess

def run(manager, script, max_ticks=100, **input_kwargs):
    """ runs script to completion, pressing action every tick """
    completed = []
    errors = []
    manager.on_error = errors.append
    manager.run(script, lambda: completed.append(True))
    for _ in range(max_ticks):
        if not manager.is_running:
            break
        manager.input_state.press_action()
        if "choice" in input_kwargs:
            manager.input_state.choose(input_kwargs["choice"])
        manager.update(0.1)
        manager.input_state.end_tick()
    assert not manager.is_running
    assert completed == [True]
    return errors

def test_clean_script():
    script = """
        # a comment
        SHOW_MESSAGE "no # comment here"   # but here

        IF $x == 1:
            SLEEP 1
    """
    assert preprocess.clean_script(script) == [
        'SHOW_MESSAGE "no # comment here"',
        "IF $x == 1:",
        "    SLEEP 1",
    ]
    assert preprocess.clean_script("\n  \n # nothing\n") == []

def test_collapse_blocks():
    lines = preprocess.clean_script("""
    IF true:
        SHOW_MESSAGE:
            Say "hi"
            to everyone
    MOVE_ENTITY "player":
        face_left
        move_left
        move_left
        move_left
    ASK_CHOICE $answer:
        Yes
        No
        Maybe
        Later
    """)
    assert lines == [
        "IF true:",
        '    SHOW_MESSAGE "Say \\"hi\\"\\nto everyone"',
        'MOVE_ENTITY "player" {face_left, move_left, move_left, move_left}',
        'ASK_CHOICE $answer {"Yes", "No", "Maybe"}',
        "    Later",
    ]

def test_find_labels():
    lines = ["LABEL start", "SLEEP 1", "LABEL end", "LABEL start"]
    assert preprocess.find_labels(lines) == {"start": 3, "end": 2}

def test_assignments_and_temporaries(script_manager, game_data):
    game_data.create_global_variable("x", "Int", "5")
    errors = run(script_manager, """
        Int $count = 2
        $count *= 3
        $global.x += $count
        Bool $done
        $done not= $done
    """)
    assert errors == []
    assert game_data.globals["x"].value == 11
    # temporaries do not outlive the script
    assert script_manager.variables.temporaries == {}

def test_declaration_from_variable(script_manager, game_data):
    game_data.create_global_variable("x", "Int", "7")
    run(script_manager, "ASSIGN Int copy = $global.x\n$global.x += $copy")
    assert game_data.globals["x"].value == 14

def test_if_else(script_manager, game_data):
    game_data.create_global_variable("x", "Int", "2")
    game_data.create_global_variable("path", "Int")
    script = """
        IF $global.x == 1:
            $global.path = 1
        ELSE_IF $global.x == 2:
            $global.path = 2
            IF $global.x > 5:
                $global.path = 20
            ELSE:
                $global.path += 1
        ELSE_IF $global.x > 1:
            $global.path = 4
        ELSE:
            $global.path = 5
        $global.x = 0
    """
    run(script_manager, script)
    assert game_data.globals["path"].value == 3
    assert game_data.globals["x"].value == 0

    game_data.globals["x"].value = 9
    run(script_manager, script)
    assert game_data.globals["path"].value == 4

    game_data.globals["x"].value = -1
    run(script_manager, script)
    assert game_data.globals["path"].value == 5

def test_goto_loop(script_manager, game_data):
    game_data.create_global_variable("x", "Int")
    run(script_manager, """
        Int $i = 0
        LABEL top
        $i += 1
        IF $i < 3:
            GOTO top
        $global.x = $i
    """)
    assert game_data.globals["x"].value == 3

def test_goto_unknown_label(script_manager):
    errors = run(script_manager, "GOTO nowhere")
    assert len(errors) == 1
    assert "unknown label" in errors[0]

@pytest.mark.parametrize("script,message", [
    ("DANCE", "unknown command DANCE"),
    ("SLEEP forever", "invalid arguments for SLEEP"),
    ("float $x = 1", "invalid type float"),
    ("Int $x\nInt $x", "already declared"),
    ("$global.missing = 1", "unknown variable"),
    ("Int $x = 4\n$x /= 0", "divide by zero"),
    ("Bool $x\nASK_CHOICE $x {\"a\"}", "needs an Int variable"),
])
def test_script_errors(script_manager, script, message):
    errors = run(script_manager, script)
    assert len(errors) == 1
    assert message in errors[0]

def test_error_stops_script(script_manager, game_data):
    game_data.create_global_variable("x", "Int")
    errors = run(script_manager, "$global.x = 1\nDANCE\n$global.x = 2")
    assert len(errors) == 1
    assert game_data.globals["x"].value == 1

def test_empty_script_completes(script_manager):
    completed = []
    script_manager.run("", lambda: completed.append(True))
    assert script_manager.is_running
    assert script_manager.update(0.1)
    assert completed == [True]
    assert not script_manager.is_running
    assert not script_manager.update(0.1)

def test_show_message(script_manager, game_data, input_state):
    game_data.create_global_variable("gold", "Int", "3")
    script_manager.run('SET_SPEAKER "Owl"\nSHOW_MESSAGE "$global.gold coins"\nCLEAR_SPEAKER')

    script_manager.update(0.1)
    message = script_manager.current_command
    assert isinstance(message, commands.ShowMessage)
    assert message.visible_text == "3"
    assert str(message) == "[Owl] 3"

    # acknowledging before the whole message shows does nothing
    input_state.press_action()
    script_manager.update(0.1)
    input_state.end_tick()
    assert script_manager.current_command is message

    for _ in range(10):
        script_manager.update(0.1)
    assert message.is_revealed
    assert message.visible_text == "3 coins"
    assert script_manager.is_running

    input_state.press_action()
    script_manager.update(0.1)
    assert not script_manager.is_running
    assert game_data.speaker == ""

def test_show_message_reveal_rate(script_manager, settings):
    settings.script.message_chars_per_sec = 20.0
    script_manager.run('SHOW_MESSAGE "abcdefghij"')
    script_manager.update(0.1)
    assert script_manager.current_command.visible_text == "ab"
    script_manager.update(0.5)
    assert script_manager.current_command.is_revealed

def test_show_message_block(script_manager):
    script_manager.run("SHOW_MESSAGE:\n    first\n    second")
    script_manager.update(0.1)
    assert script_manager.current_command.message == "first\nsecond"

def test_sleep(script_manager):
    completed = []
    script_manager.run("SLEEP 0.25", lambda: completed.append(True))
    script_manager.update(0.1)
    script_manager.update(0.1)
    assert completed == []
    script_manager.update(0.1)
    assert completed == [True]

def test_ask_choice(script_manager, game_data, input_state):
    game_data.create_global_variable("answer", "Int")
    script_manager.run("ASK_CHOICE $global.answer:\n    Yes\n    No")

    script_manager.update(0.1)
    question = script_manager.current_command
    assert isinstance(question, commands.AskChoice)
    assert question.choices == ["Yes", "No"]
    assert str(question) == "0: Yes / 1: No"

    # out of range choices are ignored
    input_state.choose(5)
    script_manager.update(0.1)
    input_state.end_tick()
    assert script_manager.is_running

    input_state.choose(1)
    script_manager.update(0.1)
    assert not script_manager.is_running
    assert game_data.globals["answer"].value == 1

def test_ask_choice_into_temporary(script_manager, game_data):
    game_data.create_global_variable("picked", "Int")
    run(script_manager, 'Int $a\nASK_CHOICE $a {"x", "y", "z"}\n$global.picked = $a', choice=2)
    assert game_data.globals["picked"].value == 2

def test_move_entity(game_data, input_state):
    moves = []
    def handler(entity_id, step):
        moves.append((entity_id, step))
        return True
    manager = ScriptManager(game_data, input_state, move_handler=handler)
    manager.run('MOVE_ENTITY "player":\n    face_left\n    move_left')

    manager.update(0.1)
    assert moves == [("player", "face_left")]
    assert manager.is_running
    manager.update(0.1)
    assert moves == [("player", "face_left"), ("player", "move_left")]
    assert not manager.is_running

def test_move_entity_without_handler(script_manager):
    run(script_manager, 'MOVE_ENTITY "player" {up, up, down}')

def test_line_budget(script_manager, game_data, settings):
    settings.script.max_lines_per_update = 2
    game_data.create_global_variable("x", "Int")
    script_manager.run("\n".join(["$global.x += 1"] * 5))

    script_manager.update(0.1)
    assert game_data.globals["x"].value == 2
    script_manager.update(0.1)
    script_manager.update(0.1)
    assert game_data.globals["x"].value == 5
    assert not script_manager.is_running

def test_register_command(script_manager, game_data):
    class Shout(ScriptCommand):
        name = "SHOUT"
        argument_pattern = re.compile(r'"(.*)"')

        def __init__(self, manager, args):
            super().__init__(manager, args)
            manager.game_data.speaker = args[0].upper()
            self.finished = True

    script_manager.register_command(Shout)
    run(script_manager, 'SHOUT "hey"')
    assert game_data.speaker == "HEY"

def test_run_replaces_running_script(script_manager):
    first = []
    script_manager.run("SLEEP 10", lambda: first.append(True))
    script_manager.update(0.1)
    second = []
    script_manager.run("", lambda: second.append(True))
    script_manager.update(0.1)
    assert first == []
    assert second == [True]
