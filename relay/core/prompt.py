# Used when a chat thread carries no assistant configuration of its own.
DEFAULT_ASSISTANT_CONFIG = "あなたは誠実で丁寧な日本語アシスタントです。"

# Reply text when the completion service answers without any content.
NO_REPLY_TEXT = "（返答なし）"
