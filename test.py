"""
WORKIWI TEST SCRIPT - Agent chat from the terminal
==================================================

PURPOSE:
Command-line interface for trying the Workiwi API without the web client.
Pick an agent (PM, DEV or DESIGNER), chat with it, and save any reply as a
document. All agents share one session, so they see the same conversation.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    1 / 2 / 3  - Switch to the PM / DEV / DESIGNER agent
    /rules     - Show the system instruction the current agent receives
    /save      - Save the last agent reply as a MEMO document
    /docs      - List saved documents
    /history   - View chat history for the current session
    /clear     - Start a new session
    /quit      - Exit
"""

import requests

from config import PORT


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
BASE_URL = f"http://localhost:{PORT}/api"
PROJECT_ID = 1
AGENTS = {"1": "PM", "2": "DEV", "3": "DESIGNER"}

SESSION_ID = None
CURRENT_AGENT = "DEV"
LAST_REPLY_TURN_ID = None


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "=" * 60)
    print("🥝 WORKIWI - Agent Chat")
    print("=" * 60)
    print("\nAgents:  1 = PM   2 = DEV   3 = DESIGNER")
    print("Commands: /rules /save /docs /history /clear /quit")
    print("=" * 60 + "\n")


def get_user_input():
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


def _error_text(response) -> str:
    """Prefer the server's detail message; fall back to status code and body."""
    try:
        detail = response.json().get("detail")
        if isinstance(detail, str):
            return f"❌ {detail}"
        if isinstance(detail, dict) and "message" in detail:
            return f"❌ {detail['message']}"
    except ValueError:
        pass
    return f"❌ Error: {response.status_code} - {response.text}"


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def send_message(message, agent):
    """
    Send a message to /api/chat as the given agent and return the reply text.
    Keeps SESSION_ID and LAST_REPLY_TURN_ID up to date.
    """
    global SESSION_ID, LAST_REPLY_TURN_ID

    try:
        response = requests.post(
            f"{BASE_URL}/chat",
            json={
                "projectId": PROJECT_ID,
                "message": message,
                "agentType": agent,
                "sessionId": SESSION_ID,
            },
            timeout=60,
        )
        if response.status_code == 200:
            data = response.json()
            SESSION_ID = data.get("sessionId", SESSION_ID)
            LAST_REPLY_TURN_ID = data.get("turnId")
            return data.get("reply", "No response")
        # The session still exists when the backend failed.
        SESSION_ID = response.headers.get("X-Session-Id", SESSION_ID)
        return _error_text(response)

    except requests.exceptions.ConnectionError:
        return "❌ Cannot connect to backend. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "❌ Request timed out."


def show_rules(agent):
    response = requests.get(
        f"{BASE_URL}/projects/{PROJECT_ID}/system-instruction",
        params={"agentType": agent},
        timeout=10,
    )
    if response.status_code != 200:
        return _error_text(response)
    return response.json()["systemInstruction"]


def save_last_reply():
    if not SESSION_ID or not LAST_REPLY_TURN_ID:
        return "❌ No agent reply to save yet"
    response = requests.post(
        f"{BASE_URL}/chat/{SESSION_ID}/turns/{LAST_REPLY_TURN_ID}/document",
        json={"docType": "MEMO"},
        timeout=10,
    )
    if response.status_code != 201:
        return _error_text(response)
    doc = response.json()["doc"]
    lines = [f"✅ Saved document #{doc['id']}: {doc['title']}"]
    for block in doc["content"]["blocks"]:
        lines.append(f"   [{block['kind']}] {block['content']}")
    return "\n".join(lines)


def list_docs():
    response = requests.get(f"{BASE_URL}/docs", timeout=10)
    if response.status_code != 200:
        return _error_text(response)
    docs = response.json()
    if not docs:
        return "No documents yet"
    return "\n".join(f"{d['id']}. [{d['docType']}] {d['title']} ({d['date']})" for d in docs)


def get_chat_history():
    if not SESSION_ID:
        return "No active session"
    response = requests.get(f"{BASE_URL}/chat/history/{SESSION_ID}", timeout=10)
    if response.status_code != 200:
        return "Could not retrieve history"
    turns = response.json().get("turns", [])
    if not turns:
        return "No messages in this session"
    output = f"\n📜 Chat History ({len(turns)} turns):\n" + "-" * 60 + "\n"
    for i, turn in enumerate(turns, 1):
        who = "You" if turn.get("sender") == "user" else f"{turn.get('agentRole') or 'AI'} Agent"
        output += f"{i}. {who}: {turn.get('text', '')}\n"
    return output + "-" * 60 + "\n"


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    global SESSION_ID, CURRENT_AGENT, LAST_REPLY_TURN_ID

    print_header()
    print(f"💡 Talking to the {CURRENT_AGENT} agent. Switch with 1, 2 or 3.\n")

    commands = {
        "/rules": lambda: show_rules(CURRENT_AGENT),
        "/save": save_last_reply,
        "/docs": list_docs,
        "/history": get_chat_history,
    }

    while True:
        try:
            user_input = get_user_input()
            if user_input is None or user_input in ["/quit", "/exit"]:
                print("\n👋 Goodbye!")
                break
            if not user_input:
                continue
            if user_input in AGENTS:
                CURRENT_AGENT = AGENTS[user_input]
                print(f"✅ Switched to the {CURRENT_AGENT} agent\n")
                continue
            if user_input == "/clear":
                SESSION_ID = None
                LAST_REPLY_TURN_ID = None
                print("\n🔄 Session cleared. Starting fresh!")
                continue
            if user_input in commands:
                print(commands[user_input]())
                continue
            if user_input.startswith("/"):
                print(f"❌ Unknown command: {user_input}")
                continue

            print(f"🤖 {CURRENT_AGENT} Agent: ", end="", flush=True)
            print(send_message(user_input, CURRENT_AGENT))

        except KeyboardInterrupt:
            print("\n\n👋 Goodbye!")
            break
        except requests.exceptions.RequestException as e:
            print(f"❌ Error: {str(e)}")


if __name__ == "__main__":
    main()
