import logging
import uvicorn
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime

# Criar diretório de logs se não existir
log_dir = "logs"
os.makedirs(log_dir, exist_ok=True)

# Configuração central de logging
log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
date_format = "%Y-%m-%d %H:%M:%S"
log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

root_logger = logging.getLogger()
root_logger.setLevel(log_level)

# Handler para console (mantém saída no terminal)
console_handler = logging.StreamHandler()
console_handler.setLevel(log_level)
console_handler.setFormatter(logging.Formatter(log_format, date_format))

# Handler para arquivo com rotação (máximo 10MB por arquivo, mantém 5 backups)
log_file = os.path.join(log_dir, "app.log")
file_handler = RotatingFileHandler(
    log_file,
    maxBytes=10 * 1024 * 1024,  # 10MB
    backupCount=5,
    encoding='utf-8'
)
file_handler.setLevel(log_level)
file_handler.setFormatter(logging.Formatter(log_format, date_format))

root_logger.addHandler(console_handler)
root_logger.addHandler(file_handler)

logging.info(f"Logging configurado. Arquivo de log: {log_file}")
logging.info(f"Aplicação iniciada em {datetime.now().strftime(date_format)}")

# Importado depois do logging para que a inicialização do engine já seja registrada
from newsin.api.http import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    # Em produção, quem sobe isso é o process manager (systemd, docker, etc.)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )
