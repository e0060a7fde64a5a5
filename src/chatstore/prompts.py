# src/chatstore/prompts.py
"""
Fixed texts used by the session core.

Holds the priming conversation every new session starts with, the templates
used to inject and request long-term memory, the topic-inference prompt and
the user-facing error strings. Kept free of model imports so any module can
depend on it.
"""

DEFAULT_TOPIC = "New Conversation"

PRIMING_SYSTEM_PROMPT = (
    "You are now the game master for a turn based game. Every turn has 3 wacky options. "
    "Each player turn should result in unpredictable consequences."
)

PRIMING_USER_PROMPT = (
    "Run a game where the player goal is to get off the planet KuKiPie in Spark Galaxy. "
    "The player should only have 5 turns before it's game over. Indicate which turn they're "
    "on each time they make a move. The first scenario is You land on the planet, and you see "
    "a huge pink fuzzball alien in the distance, it's singing a loud song."
)

PRIMING_ASSISTANT_PROMPT = (
    "Turn 1 of 5 \n You wave at the huge fuzzball, and make a big goofy smile, and look closely. "
    "It has a nice pink sweater, and a less pink face, and is eating something big and juicy. "
    "You wonder if he can help you get off the planet. \n"
    "1. Run over and see if the fuzzball speaks English. \n"
    "2. Yell hello at the fuzzball from here. \n"
    "3. Run to another part of the planet."
)

HISTORY_PROMPT_TEMPLATE = (
    "This is a summary of the chat history between the AI and the user as a recap: {content}"
)

TOPIC_PROMPT = (
    "Please generate a four to five word title summarizing our conversation without any "
    "lead-in, punctuation, quotation marks, periods, symbols, or additional text. "
    "Remove enclosing quotation marks."
)

SUMMARIZE_PROMPT = (
    "Summarize our discussion briefly in 200 words or less to use as a prompt for future context."
)

ERROR_MESSAGE = "Something went wrong, please try again later."
UNAUTHORIZED_MESSAGE = (
    "Unauthorized access, please enter the access code or API key in the settings page."
)

DELETE_CHAT_CONFIRM = "Confirm to delete the selected conversation?"
CLEAR_ALL_CONFIRM = "Confirm to clear all chat and setting data?"


def format_history_prompt(memory_prompt: str) -> str:
    """Wrap a compressed memory paragraph in the history-summary template."""
    return HISTORY_PROMPT_TEMPLATE.format(content=memory_prompt)
