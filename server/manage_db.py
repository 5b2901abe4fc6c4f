"""
Database management script for initializing tables in production.
Run this after setting DATABASE_URL environment variable.

Usage:
    python manage_db.py            # create tables and the event state row
    python manage_db.py --seed     # also add the default categories and sample codes

Uses the local SQLite file when DATABASE_URL is not set. Seeding skips
categories and codes that already exist, so it is safe to run twice.
"""
import argparse
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Mejor Comandante", "Comandante que destaca por coordinación, toma de decisiones estratégicas, manejo de logística, buena lectura de mapa y capacidad de sostener la defensa durante las partidas."),
    ("Mejor Oficial", "Líder de escuadra que destacó por comunicación clara, colocación eficiente de OPs y lectura del mapa. Aquel que supo cuándo atacar, cuándo frenar y cuándo rotar."),
    ("Mejor Infantería", "Soldado mas completo. Sigue ordenes, sabe cuando cambiar de rol y los utiliza con efectividad, sabe posicionarse y tiene lectura de mapa."),
    ("Mejor MG", "Jugador con domino en supresión y control de líneas, aquel capaz de posicionarse en lugares clave con gran impacto en las partidas."),
    ("Mejor AT", "Jugador más efectivo en la destrucción de tanques, garrys y OPs con armas antitanque. Activo en la planificación de AT sniping."),
    ("Mejor Oficial de Reconocimiento", "Mejor proveedor de información a través de bengalas. Sabe cuando y donde lanzar bengalas, capaz de mantener y dar soporte a las combinas y defensa."),
    ("Mejor Artillero", "Precisión, eficiencia y aporte táctico desde artillería."),
    ("Mejor Comandante de Tanque", "Comandante que destaco por buena lectura del terreno y mapa, elección de tácticas adecuadas, coordinación con infantería y decisiones que mantuvieron el tanque vivo."),
    ("Mejor Tripulante de Tanque", "Tripulante con dominio en conducción, disparos, reacción, seguimiento de ordenes y efectividad general del tanque."),
    ("Mejor Estratega", "Reconocimiento a quien entiende la partida antes de que empiece. Jugador que analiza el mapa, anticipa escenarios y define el plan general del equipo."),
    ("Revelación del Año (Enero-Junio)", "Jugador que nadie tenia en el radar pero termino siendo imposible de ignorar. Crecimiento acelerado en la primera mitad del año."),
    ("Revelación del Año (Junio-Diciembre)", "Jugador que nadie tenia en el radar pero termino siendo imposible de ignorar. Crecimiento acelerado en la segunda mitad del año."),
    ("Recluta eterno", "Homenaje a la persona que desafía o desafió los ascensos partida tras partida de manera eterna."),
    ("Jugador Más Disciplinado", "Conducta ejemplar, orden, puntualidad y cumplimiento de roles."),
    ("Jugador Más Activo en Eventos", "Mayor asistencia, compromiso y constancia en actividades del clan."),
    ("Killer del Año", "Jugador mas letal del año con gran impacto en las partidas a través de eliminación constante y decisiva del enemigo."),
    ("Legionario del Año", "Legionario mas completo, aquel que representa el espíritu de Legión Condor. Gran dominio de los roles, activo, constante, comprometido a lo largo del año."),
]

SAMPLE_CODES = [f"CONDOR{n:03d}" for n in range(1, 11)]


def seed() -> dict:
    """Insert default categories and sample member codes. Needs an app context."""
    from models import db, Category, MemberCode

    created_categories = 0
    for order, (name, description) in enumerate(DEFAULT_CATEGORIES, start=1):
        if Category.query.filter_by(name=name).first():
            continue
        db.session.add(Category(name=name, short_description=description, order=order, is_active=True))
        created_categories += 1

    created_codes = 0
    for code in SAMPLE_CODES:
        if MemberCode.query.filter_by(code=code).first():
            continue
        db.session.add(MemberCode(code=code))
        created_codes += 1

    db.session.commit()
    logger.info(f"✅ Seeded {created_categories} categories and {created_codes} codes")
    return {"categories": created_categories, "codes": created_codes}


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Create the voting database tables")
    parser.add_argument('--seed', action='store_true', help="add default categories and sample codes")
    args = parser.parse_args(argv)

    # create_app creates all tables and the event state row
    from app import create_app
    app = create_app()
    print("✓ Database tables created")

    if args.seed:
        with app.app_context():
            created = seed()
        print(f"✓ Seeded {created['categories']} categories and {created['codes']} codes")


if __name__ == "__main__":
    main()
