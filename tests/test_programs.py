"""End-to-end programs run through the whole pipeline."""

import pytest

from interpreter import run
from parser import parse


PROGRAMS = [
    (
        "fact",
        """
      BEGIN TEST
        BEGIN DOIT(N)
            BEGIN FACT(N)
                IF N = 0
                    FACT <- 1
                ELSE
                    FACT <- N * FACT(N - 1)
                END
            END
            DOIT <- FACT(2 * N)
        END
        DOIT(3)
      END
      """,
        "720",
    ),
    (
        "no_args",
        """
      BEGIN PROG
        BEGIN NOARG
          1
          NOARG <- -1
        END
        TEMP <- NOARG()
      END
      """,
        "1",
    ),
    (
        "inner_call",
        """
      BEGIN PROG
        BEGIN FUNC(X)
          BEGIN CALL(Y)
            0
            CALL <- "CALL"
          END
          TEMP <- CALL(0)
          1
          FUNC <- "FUNC"
        END
        TEMP <- FUNC(0)
        2
      END
      """,
        "0\n1\n2",
    ),
    (
        "no_inner_call",
        """
      BEGIN PROG
        BEGIN FUNC(X)
          BEGIN NEVER(Y)
            0
            NEVER <- "NEVER"
          END
          1
          FUNC <- "FUNC"
        END
        TEMP <- FUNC(0)
        2
      END
      """,
        "1\n2",
    ),
    (
        "bagl",
        """
      BEGIN PROG
        A <- "ALGEBRA"
        A[5 1 3 2]
      END
      """,
        "BAGL",
    ),
    (
        "gcf",
        """
      BEGIN MAIN
          BEGIN MOD(A, B)
              MOD <- A-B*(A/B)
          END
          BEGIN GCF(XD, YD)
              X <- XD
              Y <- YD
              IF X < Y
                  T <- X
                  X <- Y
                  Y <- T
                  T <-
              END
              R <- Y
              WHILE R > 0
                  R <- MOD(X, Y)
                  X <- Y
                  Y <- R
              END
              GCF <- X
          END
          GCF(2*3*5*5*7,2*2*3*5)
      END
      """,
        "30",
    ),
    (
        "gcf_swapped",
        """
      BEGIN MAIN
          BEGIN MOD(A, B)
              MOD <- A-B*(A/B)
          END
          BEGIN GCF(XD, YD)
              X <- XD
              Y <- YD
              IF X < Y
                  T <- X
                  X <- Y
                  Y <- T
                  T <-
              END
              R <- Y
              WHILE R > 0
                  R <- MOD(X, Y)
                  X <- Y
                  Y <- R
              END
              GCF <- X
          END
          GCF(12, 18)
      END
      """,
        "6",
    ),
    (
        "strcat",
        """
      BEGIN MAIN
        /* concatenation
           of two variables */
        A <- "AB"
        B <- "CD"
        A B
      END
      """,
        "ABCD",
    ),
    (
        "bcast",
        """
      BEGIN MAIN
        1 + 4 5 6
      END
      """,
        "5 6 7",
    ),
    (
        "global_counter",
        """
      BEGIN MAIN
        BEGIN .BUMP
          .COUNT <- .COUNT + 1
        END
        .COUNT <- 0
        I <- 0
        WHILE I < 4
          TEMP <- .BUMP()
          I <- I + 1
        END
        .COUNT
      END
      """,
        "4",
    ),
]


@pytest.mark.parametrize("name, source, expected", PROGRAMS, ids=[p[0] for p in PROGRAMS])
def test_program_output(name, source, expected):
    lines = []
    run(parse(source), output_sink=lines.append)
    assert "\n".join(lines) == expected
