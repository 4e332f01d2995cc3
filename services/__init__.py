"""
Services package for Facial Expression Control.

This package contains the modules that act on the outside world:
- Actuator: synthesizes pointer and keyboard events (pyautogui)
- Action arbiter: edge detection, cooldowns and drag toggle in front of the actuator
- Safety monitor: physical-click kill switch for held drags (pynput)
- Profile store / manager: JSON persistence and operator edits of profiles
"""
