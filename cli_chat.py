import os
import requests

API_URL = os.getenv("NEWSIN_API_URL", "http://localhost:8000")
API_KEY = os.getenv("BOT_API_KEY", "")

messages = [{"role": "system", "content": "You are a helpful AI assistant for a news application."}]

while True:
    msg = input("Você: ")
    if msg.lower() in ["sair", "exit"]:
        break

    messages.append({"role": "user", "content": msg})

    resp = requests.post(
        f"{API_URL}/assistant/api/stream",
        json={"messages": messages, "userId": os.getenv("NEWSIN_USER_ID")},
        headers={"X-API-KEY": API_KEY} if API_KEY else {},
        stream=True,
        timeout=60,
    )
    if resp.status_code != 200:
        print("Erro:", resp.json().get("content"))
        messages.pop()
        continue

    print("Assistente: ", end="", flush=True)
    reply = ""
    for text in resp.iter_content(chunk_size=None, decode_unicode=True):
        reply += text
        print(text, end="", flush=True)
    print()

    # Fontes ficam fora do histórico
    messages.append({"role": "assistant", "content": reply.split("\n\nSources:\n")[0]})
