"""AppleScript sources used to drive and read the target application.

Scripts report environment problems through sentinel return values instead of
raising AppleScript errors, so callers can tell "the app is gone" apart from a
broken osascript invocation.
"""

from __future__ import annotations

from .applescript import escape_applescript_string

OK = "ok"
NOT_RUNNING = "not-running"
NO_WINDOW = "no-window"
NO_CONVERSATIONS = "no-conversations"

SAMPLE_ERROR_PREFIX = "Error"
NEW_CHAT_LABEL = "New chat"


def _seconds(delay_ms: int) -> str:
    return f"{delay_ms / 1000:g}"


def _process_guard(app: str) -> str:
    return f"""
tell application "System Events"
  if not (exists process "{app}") then
    return "{NOT_RUNNING}"
  end if
end tell"""


def process_check(app_name: str) -> str:
    app = escape_applescript_string(app_name)
    return f"""{_process_guard(app)}
return "{OK}"
"""


def activate(
    app_name: str,
    *,
    conversation_id: str | None,
    activation_delay_ms: int,
    step_delay_ms: int,
) -> str:
    app = escape_applescript_string(app_name)
    if conversation_id:
        conversation = escape_applescript_string(conversation_id)
        navigate = f"""
    try
      click button "{conversation}" of group 1 of group 1 of window 1
      delay {_seconds(step_delay_ms)}
    end try"""
    else:
        navigate = f"""
    keystroke "n" using command down
    delay {_seconds(step_delay_ms)}"""
    return f"""{_process_guard(app)}
tell application "{app}" to activate
delay {_seconds(activation_delay_ms)}
tell application "System Events"
  tell process "{app}"
    set frontmost to true{navigate}
  end tell
end tell
return "{OK}"
"""


def window_count(app_name: str) -> str:
    app = escape_applescript_string(app_name)
    return f"""{_process_guard(app)}
tell application "System Events"
  return (count of windows of process "{app}") as text
end tell
"""


def prepare_input(app_name: str, *, step_delay_ms: int) -> str:
    app = escape_applescript_string(app_name)
    return f"""{_process_guard(app)}
tell application "System Events"
  tell process "{app}"
    if not (exists window 1) then
      return "{NO_WINDOW}"
    end if
    try
      repeat with elem in (entire contents of window 1)
        if role of elem is "AXTextArea" then
          set focused of elem to true
          exit repeat
        end if
      end repeat
    end try
    keystroke "a" using command down
    key code 51
    delay {_seconds(step_delay_ms)}
  end tell
end tell
return "{OK}"
"""


def paste_and_submit(app_name: str, *, step_delay_ms: int) -> str:
    app = escape_applescript_string(app_name)
    return f"""{_process_guard(app)}
tell application "System Events"
  tell process "{app}"
    if not (exists window 1) then
      return "{NO_WINDOW}"
    end if
    set frontmost to true
    keystroke "v" using command down
    delay {_seconds(step_delay_ms)}
    key code 36
  end tell
end tell
return "{OK}"
"""


def process_gone_message(app_name: str) -> str:
    return f"{SAMPLE_ERROR_PREFIX}: {app_name} process not found"


def no_window_message(app_name: str) -> str:
    return f"{SAMPLE_ERROR_PREFIX}: no {app_name} window"


def sample_window_text(app_name: str) -> str:
    app = escape_applescript_string(app_name)
    gone = escape_applescript_string(process_gone_message(app_name))
    no_window = escape_applescript_string(no_window_message(app_name))
    return f"""
tell application "System Events"
  if not (exists process "{app}") then
    return "{gone}"
  end if
  tell process "{app}"
    if (count of windows) = 0 then
      return "{no_window}"
    end if
    set messageTexts to {{}}
    try
      repeat with elem in (entire contents of front window)
        try
          set elemRole to role of elem
          if elemRole is "AXStaticText" or elemRole is "AXTextArea" then
            set txtValue to value of elem
            if txtValue is not missing value and (txtValue as text) is not "" then
              set end of messageTexts to (txtValue as text)
            end if
          end if
        end try
      end repeat
    on error errMsg
      return "{SAMPLE_ERROR_PREFIX} reading window: " & errMsg
    end try
    set AppleScript's text item delimiters to linefeed & linefeed
    set allText to messageTexts as text
    set AppleScript's text item delimiters to ""
    return allText
  end tell
end tell
"""


def list_conversations(app_name: str, *, activation_delay_ms: int) -> str:
    app = escape_applescript_string(app_name)
    return f"""{_process_guard(app)}
tell application "{app}" to activate
delay {_seconds(activation_delay_ms)}
tell application "System Events"
  tell process "{app}"
    if not (exists window 1) then
      return "{NO_WINDOW}"
    end if
    set conversationsList to {{}}
    try
      if exists group 1 of group 1 of window 1 then
        repeat with chatButton in (buttons of group 1 of group 1 of window 1)
          try
            set buttonName to name of chatButton
            if buttonName is not missing value and buttonName is not "{NEW_CHAT_LABEL}" and buttonName is not "" then
              set end of conversationsList to buttonName
            end if
          end try
        end repeat
      end if
      if (count of conversationsList) is 0 then
        repeat with elem in (UI elements of window 1)
          try
            set elemTitle to value of attribute "AXTitle" of elem
            if elemTitle is not missing value and elemTitle is not "{NEW_CHAT_LABEL}" and elemTitle is not "" then
              set end of conversationsList to elemTitle
            end if
          end try
        end repeat
      end if
    on error errMsg
      return "{SAMPLE_ERROR_PREFIX}: " & errMsg
    end try
    if (count of conversationsList) is 0 then
      return "{NO_CONVERSATIONS}"
    end if
    set AppleScript's text item delimiters to linefeed
    set joined to conversationsList as text
    set AppleScript's text item delimiters to ""
    return joined
  end tell
end tell
"""
