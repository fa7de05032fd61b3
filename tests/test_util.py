from ucmflow import util
from ucmflow.engine import NarrativeEngine

def test_camel_to_snake():
    assert util.camel_to_snake("StartPoint") == "start_point"
    assert util.camel_to_snake("RespRef") == "resp_ref"
    assert util.camel_to_snake("onPreloadEventCallback") == "on_preload_event_callback"

def test_leading_whitespace():
    assert util.leading_whitespace("\t  IF x:") == "\t  "
    assert util.leading_whitespace("ELSE:") == ""
    assert util.leading_whitespace("   ") == "   "

def test_fullname():
    assert util.fullname(NarrativeEngine) == "ucmflow.engine.NarrativeEngine"
    assert util.fullname(3) == "int"
