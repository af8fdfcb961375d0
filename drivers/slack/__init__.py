# Slack driver.
#
# Receive: one of two modes, chosen at start-up:
#   Outgoing webhook (webhook_bind_address set) – Slack POSTs form data to us;
#                                                 username, text and channel only.
#   Socket Mode      (app_token set)            – live event stream with subtypes,
#                                                 edits, deletes, files, bots.
#
# Every session message goes through the skip filter (echo / loop suppression),
# then the classifier, which folds it into a CanonicalMessage.  A single
# consumer sanitizes Slack markup and forwards to the gateway in order.
#
# Send: chat.postMessage + files_upload_v2 (requires token), or the incoming
#       webhook URL (text only) when no token is configured.  Uploaded files
#       are recorded in the loop-suppression cache so Slack's echo is dropped.
#
# Config keys (under slack.<instance_id>):
#   token                    – Bot token (xoxb-...): lookups, downloads, send
#   app_token                – App-level token (xapp-...) for Socket Mode
#   webhook_bind_address     – host:port for the outgoing webhook receiver
#   webhook_path             – HTTP path for that receiver (default "/")
#   webhook_token            – Expected outgoing webhook token (optional)
#   webhook_url              – Incoming webhook URL for text-only send
#   edit_disable             – Don't relay edits (default false)
#   edit_suffix              – Appended to edited text, e.g. " (edited)"
#   no_send_join_part        – Don't relay joins/leaves (default false)
#   use_channel_id           – Report channels as "ID:<id>" instead of names
#   irc_bridge_bot_names     – Bot names whose posts are re-attributed to the
#                              human user (default ["Slack API Tester"])
#   max_file_size            – Max bytes per downloaded file (default 1 MB)
#   media_download_blacklist – Regexes of file names never downloaded
#
# Rule channel keys:
#   channel    – Slack channel name, or "ID:<channel id>"
#   channel_id – Slack channel ID, e.g. "C1234567890"

from services.config_schema import SlackConfig
from drivers.slack.driver import SlackDriver

from drivers.registry import register
register("slack", SlackConfig, SlackDriver)
