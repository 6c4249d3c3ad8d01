# whitelist.py
"""
このファイルは Vulture が検出した「デッドコード」の誤検知を
抑制するためのホワイトリストです。

Pydanticモデルのフィールドやバリデーター、Typerのコマンド、
Protocolの実装など、Vulture が静的解析で
「未使用」と判断してしまう項目をここで定義します。
"""

# --- Pydanticの設定・バリデーター ---
model_config
normalize_extension
validate_recipient
check_processing_flag
settings_customise_sources
get_field_value

# --- Pydanticモデルのフィールド (settings.py / preset.py) ---
reserved_prefix
ignored_directory_names
identify_binary
convert_binary
publisher
fail_max
reset_timeout
last_updated
colorspace_conversion

# --- テンプレートからのみ参照されるフィールド (models/domain.py) ---
identifier
modified
filename

# --- Typerのコールバックとコマンド (entrypoints/cli.py) ---
main_callback
run
watch
status
clear_history
presets
verify_delivery
