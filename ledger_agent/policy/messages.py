"""
Orchestrator Messages

Replies the orchestrator writes itself, when the model cannot: failures,
the tool-loop limit, a rejected API key, and an empty final answer.
"""

from ledger_agent.models.chat import ReplyLanguage


APOLOGY = "apology"
ITERATION_LIMIT = "iteration_limit"
CREDENTIALS_NEEDED = "credentials_needed"
EMPTY_ANSWER = "empty_answer"
BUSY = "busy"

MESSAGES: dict[str, dict[ReplyLanguage, str]] = {
    APOLOGY: {
        ReplyLanguage.ENGLISH: "Sorry, something went wrong while handling your request. Please try again in a moment.",
        ReplyLanguage.TRADITIONAL_CHINESE: "抱歉，處理您的請求時發生錯誤，請稍後再試一次。",
    },
    ITERATION_LIMIT: {
        ReplyLanguage.ENGLISH: "Sorry, I could not complete that request. Could you rephrase it or break it into smaller steps?",
        ReplyLanguage.TRADITIONAL_CHINESE: "抱歉，我無法完成這個請求。可以換個說法，或分成幾個步驟再試一次嗎？",
    },
    CREDENTIALS_NEEDED: {
        ReplyLanguage.ENGLISH: "Sorry, I could not connect to Gemini. The API key may be invalid, expired, or out of quota. Please enter your own API key to continue.",
        ReplyLanguage.TRADITIONAL_CHINESE: "抱歉，無法連線到 Gemini。API 金鑰可能無效、已過期或額度已用完，請輸入您自己的 API 金鑰後繼續。",
    },
    EMPTY_ANSWER: {
        ReplyLanguage.ENGLISH: "Done, but I have nothing more to add.",
        ReplyLanguage.TRADITIONAL_CHINESE: "我已處理完成，但沒有文字回應。",
    },
    BUSY: {
        ReplyLanguage.ENGLISH: "Still working on your previous message, please wait.",
        ReplyLanguage.TRADITIONAL_CHINESE: "正在處理上一則訊息，請稍候。",
    },
}


def get_message(key: str, language: ReplyLanguage) -> str:
    return MESSAGES[key][language]
