"""Survey texts shown after trainings and on the platform satisfaction prompt."""

TRAINING_EFFICACY_QUESTION = (
    "Após a realização deste treinamento, você percebe melhoria na sua capacidade de "
    "aplicar os conhecimentos adquiridos em suas atividades diárias de trabalho?"
)

TRAINING_EFFICACY_OPTIONS = {
    1: "Não Percebo melhoria",
    2: "Pequena Melhoria",
    3: "Melhoria Moderada",
    4: "Grande Melhoria",
    5: "Melhoria Significativa",
}

PLATFORM_SATISFACTION_QUESTION = (
    "De modo geral, qual é o seu nível de satisfação com a plataforma utilizada "
    "para realização do treinamento?"
)

PLATFORM_SATISFACTION_OPTIONS = {
    1: "Muito Insatisfeito",
    2: "Insatisfeito",
    3: "Neutro",
    4: "Satisfeito",
    5: "Muito Satisfeito",
}
